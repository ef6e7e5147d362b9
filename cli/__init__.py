"""
nftmeta Command Line Interface

Click-based CLI over the persisted NFT metadata registry.
"""

__version__ = "1.0.0"
