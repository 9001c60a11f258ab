"""
Split Banking Core

Multi-party split-payment agreement for a simulated retail bank, with an
all-pairs currency conversion index used for every cross-currency check.
"""

__version__ = "1.0.0"
