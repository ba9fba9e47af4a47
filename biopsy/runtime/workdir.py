from __future__ import annotations

import contextlib
import gzip
import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Generator, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)


def create_workdir(parent: Union[str, Path]) -> Path:
    """Create a uniquely named directory under ``parent`` and return it."""
    parent = Path(parent)
    parent.mkdir(parents=True, exist_ok=True)
    while True:
        candidate = parent / uuid.uuid4().hex
        try:
            candidate.mkdir()
        except FileExistsError:
            continue
        return candidate


def retain_files(
    workdir: Path,
    names: Iterable[str],
    destination: Path,
    compress: bool = False,
) -> List[Path]:
    """
    Move the named files out of ``workdir`` into ``destination``.

    Only plain files directly inside workdir are considered. When
    ``compress`` is set each file is gzipped on the way out.
    """
    wanted = set(names)
    if not wanted:
        return []

    destination.mkdir(parents=True, exist_ok=True)
    kept: List[Path] = []
    for path in sorted(workdir.iterdir()):
        if not path.is_file() or path.name not in wanted:
            continue
        if compress:
            dest = destination / f"{path.name}.gz"
            with open(path, "rb") as src, gzip.open(dest, "wb") as dst:
                shutil.copyfileobj(src, dst)
            path.unlink()
        else:
            dest = destination / path.name
            shutil.move(str(path), str(dest))
        kept.append(dest)
    logger.debug(f"Retained {len(kept)} file(s) from {workdir} in {destination}")
    return kept


@contextlib.contextmanager
def scoped_workdir(
    parent: Optional[Union[str, Path]] = None,
    cleanup: bool = True,
) -> Generator[Path, None, None]:
    """
    Provide a fresh working directory for one evaluation.

    The directory is removed on every exit path, including when the body
    raises, unless ``cleanup`` is False.
    """
    if parent is None:
        workdir = Path(tempfile.mkdtemp(prefix="biopsy_"))
    else:
        workdir = create_workdir(parent)
    try:
        yield workdir
    finally:
        if cleanup:
            shutil.rmtree(workdir, ignore_errors=True)
