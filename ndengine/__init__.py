# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
ndengine: native engine binding layer.

Resolves, downloads, caches and loads the platform-specific shared
libraries of a tensor engine, compares NDArrays with exact closeness
semantics, and composes neural blocks with a versioned binary format.
"""

__version__ = "0.1.0"
