# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Native engine binding package.

Pipeline, leaf first:
  - version / resolver: canonical version, build flavor, overrides
  - platform: what the host and the local bundle describe
  - fetcher / bridge: populate the versioned on-disk cache
  - loader: dlopen the cached libraries in dependency order
  - library: the locked, memoized entry point tying it together
"""
