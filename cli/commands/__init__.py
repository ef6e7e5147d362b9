"""
nftmeta CLI Commands Package

Command modules for the NFT metadata registry CLI.
"""

__all__ = ['attributes', 'derivation', 'admin']
