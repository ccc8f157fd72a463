import re
from datetime import datetime, timezone

from utils import (
    allowed_file,
    build_upload_filename,
    file_extension,
    generate_file_hash,
    generate_transaction_hash,
    is_wallet_address,
    normalize_address,
    same_address,
)


def test_address_comparison_ignores_case_and_whitespace():
    assert normalize_address(" 0xAbC ") == "0xabc"
    assert same_address("0xABC", "0xabc")
    assert not same_address("0xabc", "0xabd")
    assert normalize_address(None) == ""


def test_wallet_address_format():
    assert is_wallet_address("0x" + "a" * 40)
    assert not is_wallet_address("0xP")
    assert not is_wallet_address("not-an-address")


def test_transaction_hash_shape_and_randomness():
    first, second = generate_transaction_hash(), generate_transaction_hash()

    assert re.fullmatch(r"0x[0-9a-f]{64}", first)
    assert first != second


def test_file_hash_depends_on_title_and_time():
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)

    digest = generate_file_hash("Lab A", moment)
    assert re.fullmatch(r"[0-9a-f]{64}", digest)
    assert digest == generate_file_hash("Lab A", moment)
    assert digest != generate_file_hash("Lab B", moment)


def test_allowed_file_checks_extension_case_insensitively():
    allowed = {"pdf", "png"}

    assert allowed_file("scan.PDF", allowed)
    assert not allowed_file("notes.txt", allowed)
    assert not allowed_file("no_extension", allowed)
    assert file_extension("archive.tar.gz") == "gz"


def test_upload_filename_keeps_sanitized_extension():
    name = build_upload_filename("../../My Scan.JPG")

    assert re.fullmatch(r"file-\d+-\d+\.jpg", name)
    assert build_upload_filename("README").startswith("file-")


def test_upload_filename_keeps_extension_of_non_ascii_names():
    assert re.fullmatch(r"file-\d+-\d+\.pdf", build_upload_filename("检查.pdf"))
    assert re.fullmatch(r"file-\d+-\d+\.png", build_upload_filename("рентген.PNG"))
