# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

ENV_PREFIX = "BOSONCI_"

DEFAULT_SHARE_DIR = "/mnt/space/share"
DEFAULT_BASE_IMAGE = "ubuntu"
DEFAULT_IMAGE_TAG = "version1.0"


def _int_or_none(raw: Optional[str], name: str) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{ENV_PREFIX}{name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runner settings, read from BOSONCI_* environment variables.

    base_image and clone_depth are what differs between the bootstrap build
    (plain `ubuntu`, full clone) and the steady-state build (registry image,
    shallow clone). Both are configuration; neither is the default truth.
    """
    workspace: Path
    share_dir: str = DEFAULT_SHARE_DIR
    base_image: str = DEFAULT_BASE_IMAGE
    clone_depth: Optional[int] = None
    registry: Optional[str] = None
    image_tag: str = DEFAULT_IMAGE_TAG
    max_workers: int = 1

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            return env.get(ENV_PREFIX + name, default)

        return cls(
            workspace=Path(get("WORKSPACE") or ".").expanduser(),
            share_dir=get("SHARE_DIR") or DEFAULT_SHARE_DIR,
            base_image=get("BASE_IMAGE") or DEFAULT_BASE_IMAGE,
            clone_depth=_int_or_none(get("CLONE_DEPTH"), "CLONE_DEPTH"),
            registry=get("REGISTRY") or None,
            image_tag=get("IMAGE_TAG") or DEFAULT_IMAGE_TAG,
            max_workers=_int_or_none(get("MAX_WORKERS"), "MAX_WORKERS") or 1,
        )
