"""File output helpers."""

import os
import stat
from pathlib import Path

from loguru import logger


def write_script(text: str, output_path: str, overwrite: bool = True) -> Path:
    """Write a generated script and mark it executable.

    Args:
        text: Script contents
        output_path: Destination path
        overwrite: Replace an existing file

    Returns:
        Path of the written file

    Raises:
        FileExistsError: If the file exists and ``overwrite`` is False
    """
    path = Path(output_path)
    if path.exists() and not overwrite:
        raise FileExistsError(f'File already exists: {output_path}')

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8', newline='\n') as f:
        f.write(text)

    mode = os.stat(path).st_mode
    os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    logger.info(f'Wrote {len(text.splitlines())} lines to {path}')
    return path
