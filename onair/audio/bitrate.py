"""
Bit-rate discovery via `sox --i -B`.
"""

import asyncio
import logging

from onair.audio.sox_tool import SoxTool
from onair.errors import ProbeError

logger = logging.getLogger(__name__)

# Size of the first chunk read from each channel
PROBE_READ_SIZE = 1024

_UNIT_MULTIPLIERS = {
    "k": 1000,
    "K": 1000,
    "M": 1000 * 1000,
}


def probe_args(path: str) -> list:
    return ["--i", "-B", path]


def parse_bit_rate(text: str) -> int:
    """
    Parse sox's bit-rate output ("64k", "1.41M", "128000") into bits per second.

    Raises:
        ValueError: If the text is not a number with an optional unit suffix
    """
    value = text.strip()
    if not value:
        raise ValueError("empty bit rate")

    multiplier = _UNIT_MULTIPLIERS.get(value[-1])
    if multiplier is not None:
        value = value[:-1]
    else:
        multiplier = 1

    return int(round(float(value) * multiplier))


class BitrateProber:
    """
    Asks the audio tool for a file's bit rate.

    probe() never raises: any failure returns the configured fallback.
    """

    def __init__(self, tool: SoxTool, fallback_bit_rate: int):
        self.tool = tool
        self.fallback_bit_rate = fallback_bit_rate

    async def probe(self, path: str) -> int:
        try:
            bit_rate = await self._inspect(path)
        except Exception as e:
            logger.warning(
                f"Bit-rate probe failed for {path}: {e!r}; "
                f"using fallback {self.fallback_bit_rate} bps"
            )
            return self.fallback_bit_rate

        logger.info(f"Probed {path}: {bit_rate} bps")
        return bit_rate

    async def _inspect(self, path: str) -> int:
        async with await self.tool.run(probe_args(path)) as proc:
            # First chunk (or EOF) from both channels, not a full drain
            output, error = await asyncio.gather(
                proc.stdout.read(PROBE_READ_SIZE),
                proc.stderr.read(PROBE_READ_SIZE),
            )

        if error:
            raise ProbeError(error)

        return parse_bit_rate(output.decode("utf-8", errors="replace"))
