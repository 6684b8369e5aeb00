from ._b64 import PAYLOAD_DTYPE, array_to_payload, payload_to_array

__all__ = ["PAYLOAD_DTYPE", array_to_payload.__name__, payload_to_array.__name__]
