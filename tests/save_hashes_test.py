import struct

import pytest
import xxhash

from gbfr_format import (DEFAULT_FORMAT, FOOTER_BYTES, HASH_BYTES, FormatDescription,
                         HashSectionInfo, load_format_description)
from save_errors import HashMismatchError, HashRangeInvalidError, InvalidLayoutError
from save_factory import FOOTER
from save_hashes import (active_hash_index, find_mismatches, hashes_offset_of, section_range,
                         stored_hashes, verify_hashes)
from slot_data import encode_slot_data
from slot_serializer import serialize_slot_data
from table_index import TableIndex


def test_slot_buffer_layout(mixed_slot) -> None:
    slot_buf, hashes_offset = serialize_slot_data(mixed_slot, FOOTER)
    assert hashes_offset == len(encode_slot_data(mixed_slot))
    assert len(slot_buf) == hashes_offset + HASH_BYTES + FOOTER_BYTES
    assert slot_buf[:hashes_offset] == encode_slot_data(mixed_slot)

    footer = slot_buf[-FOOTER_BYTES:]
    assert struct.unpack_from('<I', footer)[0] == hashes_offset
    assert footer[4:] == FOOTER[4:]
    assert hashes_offset_of(slot_buf) == hashes_offset


def test_hashes_cover_documented_ranges(mixed_slot) -> None:
    slot_buf, hashes_offset = serialize_slot_data(mixed_slot, FOOTER)
    hashes = stored_hashes(slot_buf, hashes_offset)
    for i, section in enumerate(DEFAULT_FORMAT.hash_sections):
        data = bytes(slot_buf[section.start_offset:hashes_offset - section.sub_size])
        assert hashes[i] == xxhash.xxh64(data, seed=DEFAULT_FORMAT.xxhash64_seed).intdigest()


def test_fresh_buffer_has_no_mismatches(mixed_slot) -> None:
    slot_buf, _ = serialize_slot_data(mixed_slot, FOOTER)
    assert find_mismatches(slot_buf) == []


def test_flipped_table_byte_is_detected(mixed_slot) -> None:
    slot_buf, _ = serialize_slot_data(mixed_slot, FOOTER)
    slot_buf[0x30] ^= 0xFF
    assert find_mismatches(slot_buf) == list(range(10))


def test_seed_changes_hashes(mixed_slot) -> None:
    seeded = FormatDescription(xxhash64_seed=0x1234)
    slot_buf, _ = serialize_slot_data(mixed_slot, FOOTER, seeded)
    assert find_mismatches(slot_buf, seeded) == []
    assert find_mismatches(slot_buf) == list(range(10))


def test_section_range_invalid() -> None:
    with pytest.raises(HashRangeInvalidError) as excinfo:
        section_range(4, HashSectionInfo(0x20, 0x10), 0x28)
    assert excinfo.value.index == 4
    assert section_range(0, HashSectionInfo(0x20, 0x08), 0x28) == (0x20, 0x20)


def test_footer_disagreeing_with_length() -> None:
    buf = bytearray(0x40 + HASH_BYTES + FOOTER_BYTES)
    struct.pack_into('<I', buf, len(buf) - FOOTER_BYTES, 0x41)
    with pytest.raises(InvalidLayoutError):
        hashes_offset_of(buf)
    with pytest.raises(InvalidLayoutError):
        hashes_offset_of(bytes(10))


def test_active_hash_index(sigil_slot, wrightstone_slot) -> None:
    assert active_hash_index(TableIndex(sigil_slot)) == 7
    assert active_hash_index(TableIndex(wrightstone_slot)) is None


def test_verify_file(sigil_save, capsys) -> None:
    assert verify_hashes(sigil_save, verbose=True) is True
    assert "active index: 7" in capsys.readouterr().out


def test_verify_reports_every_bad_section(sigil_save) -> None:
    with open(sigil_save, 'r+b') as f:
        f.seek(0, 2)
        hash_table = f.tell() - FOOTER_BYTES - HASH_BYTES
        for i in (2, 5):
            f.seek(hash_table + 8 * i)
            f.write(b'\x00' * 8)

    with pytest.raises(HashMismatchError) as excinfo:
        verify_hashes(sigil_save)
    assert excinfo.value.mismatched == [2, 5]


def test_layout_override(tmp_path) -> None:
    path = tmp_path / "layout.json"
    path.write_text('{"xxhash64_seed": "0xFF", "hash_sections": ' + str([[0, 0]] * 10) + '}')
    fmt = load_format_description(str(path))
    assert fmt.xxhash64_seed == 0xFF
    assert fmt.hash_seed_id_type == DEFAULT_FORMAT.hash_seed_id_type
    assert all(s == HashSectionInfo(0, 0) for s in fmt.hash_sections)


def test_layout_needs_ten_sections() -> None:
    with pytest.raises(ValueError):
        FormatDescription(hash_sections=(HashSectionInfo(0, 0),))
