DEFAULT_BLOCK_SIZE = 64 * 2 ** 10

# checksums are unsigned crc32 values
CHECKSUM_MASK = 0xffffffff


def block_count(size: int, block_size: int) -> int:
    return (size + block_size - 1) // block_size


def block_offset(index: int, block_size: int) -> int:
    return index * block_size


def block_length(index: int, size: int, block_size: int) -> int:
    """
    Every block is block_size bytes long except the last, which holds whatever remains
    """
    return min(block_size, size - index * block_size)
