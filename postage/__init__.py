"""Postage stamp signing: bucket derivation, stamp schemes and issuer state."""

from postage.issuer import StampIssuer
from postage.stamp import (
    PostageBatch,
    Stamp,
    StampScheme,
    bucket_index,
    marshal_stamp,
    recover_signer,
    sign,
)

__all__ = [
    "PostageBatch",
    "Stamp",
    "StampIssuer",
    "StampScheme",
    "bucket_index",
    "marshal_stamp",
    "recover_signer",
    "sign",
]
