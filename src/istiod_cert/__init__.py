"""
istiod_cert — dynamic istiod certificate provisioner.

Keeps one cert-manager Certificate for the istiod control plane in line with
a runtime-changeable issuer and a fixed set of service identities.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
