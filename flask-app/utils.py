# flask-app/utils.py

import hashlib
import os
import random
import time
from datetime import datetime, timezone

from web3 import Web3
from werkzeug.utils import secure_filename


# --- Time ---

def utcnow():
    """Timezone-aware 'now' in UTC."""
    return datetime.now(timezone.utc)


def epoch_millis(moment=None):
    moment = moment or utcnow()
    return int(moment.timestamp() * 1000)


# --- Wallet Addresses ---
# Addresses are self-asserted identifiers. All comparisons are case-insensitive,
# the stored value keeps whatever casing it was registered/uploaded with.

def normalize_address(address):
    return (address or '').strip().lower()


def same_address(first, second):
    """Case-insensitive address comparison."""
    return normalize_address(first) == normalize_address(second)


def is_wallet_address(address):
    """True if the string is a well-formed Ethereum address (hex, optional EIP-55 checksum)."""
    try:
        return Web3.is_address(address)
    except (TypeError, ValueError):
        return False


# --- Simulated Blockchain Identifiers ---
# Nothing below is ever verified against file contents or a chain; the values
# only give records the look of an on-chain entry.

def generate_transaction_hash():
    """Returns a random '0x'-prefixed 32-byte hex string shaped like a tx hash."""
    return Web3.to_hex(Web3.keccak(os.urandom(32)))


def generate_file_hash(title, moment=None):
    """SHA-256 hex of the record title plus the creation time in milliseconds."""
    seed = f"{title}{epoch_millis(moment)}"
    return hashlib.sha256(seed.encode('utf-8')).hexdigest()


# --- Uploads ---

def file_extension(filename):
    """Lower-cased extension without the dot, '' if there is none."""
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[1].lower()


def allowed_file(filename, allowed_extensions):
    """Checks if the file extension is allowed."""
    return file_extension(filename) in allowed_extensions


def build_upload_filename(original_filename, field_name='file'):
    """Unique on-disk name: '<field>-<millis>-<random><.ext>'."""
    # Take the extension from the raw name; secure_filename drops non-ASCII stems along with the dot.
    extension = secure_filename(file_extension(original_filename))
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    name = f"{field_name}-{suffix}"
    return f"{name}.{extension}" if extension else name
