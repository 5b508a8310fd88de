"""
Transaction Metadata

Builds auxiliary data for delegation transactions and measures its CBOR
size for fee estimation.

- CIP-20 messages (label 674), e.g. a delegation memo
- Custom labelled metadata

Reference:
- CIP-20: https://cips.cardano.org/cips/cip20/
"""

from typing import Any

import pycardano as pc

# Metadata limits
MAX_METADATA_SIZE = 16_384
MAX_STRING_LENGTH = 64
CIP20_LABEL = 674


def convert_metadata_keys(metadata: dict) -> dict:
    """
    Convert numeric string keys to integers

    pycardano requires integer labels, e.g. ``{"674": ...}`` becomes
    ``{674: ...}``. Nested mappings and lists are converted recursively.
    """
    def convert(value: Any) -> Any:
        if isinstance(value, dict):
            return {
                (int(k) if isinstance(k, str) and k.isdigit() else k): convert(v)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [convert(item) for item in value]
        return value

    return convert(metadata)


def _chunk(message: str) -> list[str]:
    return [message[i:i + MAX_STRING_LENGTH] for i in range(0, len(message), MAX_STRING_LENGTH)] or [""]


def prepare_cip20_metadata(message: str | list[str], additional_fields: dict | None = None) -> pc.AuxiliaryData:
    """
    Build CIP-20 message metadata

    Strings longer than 64 characters are split into chunks.
    """
    chunks = _chunk(message) if isinstance(message, str) else [c for part in message for c in _chunk(part)]
    body: dict[Any, Any] = {"msg": chunks}
    if additional_fields:
        body.update(additional_fields)
    return _auxiliary_data({CIP20_LABEL: body})


def _auxiliary_data(metadata: dict) -> pc.AuxiliaryData:
    metadata_obj = pc.Metadata(convert_metadata_keys(metadata))
    return pc.AuxiliaryData(pc.AlonzoMetadata(metadata=metadata_obj))


def prepare_metadata(metadata_input: dict | None) -> pc.AuxiliaryData | None:
    """
    Build auxiliary data, detecting CIP-20 or custom labels

    - ``{"msg": ...}`` at the root: CIP-20
    - anything else: custom labelled metadata
    """
    if not metadata_input:
        return None

    if "msg" in metadata_input:
        extra = {k: v for k, v in metadata_input.items() if k != "msg"}
        return prepare_cip20_metadata(metadata_input["msg"], extra or None)

    return _auxiliary_data(metadata_input)


def metadata_size(metadata_input: dict | None) -> int:
    """CBOR size of the auxiliary data in bytes (0 when empty)"""
    aux_data = prepare_metadata(metadata_input)
    if aux_data is None:
        return 0
    return len(aux_data.to_cbor())


def validate_metadata_size(metadata: dict | None) -> tuple[bool, str]:
    """
    Validate that metadata stays within the per-transaction limit

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        size = metadata_size(metadata)
    except Exception as e:
        return False, f"Metadata validation error: {str(e)}"

    if size > MAX_METADATA_SIZE:
        return False, f"Metadata size ({size} bytes) exceeds maximum ({MAX_METADATA_SIZE} bytes)"
    return True, ""
