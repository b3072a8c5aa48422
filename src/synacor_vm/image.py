"""Program image loading.

An image is a flat file of little-endian 16-bit words, loaded into memory
starting at address 0. A trailing odd byte is not part of any word and is
dropped.
"""

import struct
from pathlib import Path
from typing import List, Union


def parse_image(data: bytes) -> List[int]:
    """Split raw image bytes into words.

    Args:
        data: Image file contents

    Returns:
        List of 16-bit words in file order
    """
    count = len(data) // 2
    return list(struct.unpack(f"<{count}H", data[:count * 2]))


def read_image(path: Union[str, Path]) -> List[int]:
    """Read and parse an image file.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    return parse_image(Path(path).read_bytes())
