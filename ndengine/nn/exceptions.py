# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""Exceptions raised by blocks and parameters."""


class MalformedModelError(Exception):
    """Raised when serialized parameters can't be read back into a block."""


class UnsupportedVersionError(MalformedModelError):
    """Raised when a serialized block carries an encoding version this code can't read."""


class EmptyCompositeError(ValueError):
    """Raised when output shapes are requested from a composite with no children."""
