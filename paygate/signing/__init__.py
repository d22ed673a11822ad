from paygate.signing.signature import (
    canonical_string,
    compute_signature,
    encode_component,
    verify_signature,
)

__all__ = ["canonical_string", "compute_signature", "encode_component", "verify_signature"]
