# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Neural block composition.

Blocks form an ownership tree: a composite owns its children exclusively,
leaves own their Parameters. Shapes are resolved lazily on the first
`initialize` call, and every block serializes its parameters into a
versioned, self-delimiting binary stream.
"""
