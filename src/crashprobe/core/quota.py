"""Disk-quota gating for sender output directories."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def dir_usage(path: str | Path) -> int:
    """Sum of regular file sizes below ``path`` (0 when it does not exist)."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                st = os.lstat(os.path.join(root, name))
            except FileNotFoundError:
                continue
            total += st.st_size
    return total


class QuotaGuard:
    """Answer whether a sender may still write into its output directory."""

    def usage(self, outdir: Path) -> int:
        return dir_usage(outdir)

    def has_space(self, outdir: Path, quota: int) -> bool:
        used = self.usage(outdir)
        if used >= quota:
            logger.warning("(%s) uses %d bytes, quota is %d", outdir, used, quota)
            return False
        return True
