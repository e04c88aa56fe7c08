"""Server-side human movement verification.

Turns a raw pointer trace into a pass/fail verdict and, for passing traces,
a signed time-bounded attestation that can be re-verified later.
"""

__version__ = "1.4.0"
