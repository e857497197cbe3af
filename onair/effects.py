"""
Effect file lookup.

Resolves an effect name (a lowercase command token) to a file in the effects
directory by case-insensitive substring match.
"""

import asyncio
import logging
import os
from typing import List

from onair.errors import EffectNotFound

logger = logging.getLogger(__name__)


class EffectLibrary:
    """Effects directory scanner."""

    def __init__(self, fx_dir: str):
        self.fx_dir = fx_dir

    async def list_effects(self) -> List[str]:
        """File names in the effects directory, sorted."""
        try:
            names = await asyncio.to_thread(os.listdir, self.fx_dir)
        except FileNotFoundError:
            logger.warning(f"Effects directory does not exist: {self.fx_dir}")
            return []
        return sorted(
            name for name in names
            if os.path.isfile(os.path.join(self.fx_dir, name))
        )

    async def resolve(self, name: str) -> str:
        """
        Find the effect file whose name contains `name`.

        Raises:
            EffectNotFound: If no file matches
        """
        token = name.strip().lower()
        if not token:
            raise EffectNotFound("Empty effect name")

        for filename in await self.list_effects():
            if token in filename.lower():
                path = os.path.join(self.fx_dir, filename)
                logger.debug(f"Effect '{token}' resolved to {path}")
                return path

        raise EffectNotFound(f"Effect not available: {name}")
