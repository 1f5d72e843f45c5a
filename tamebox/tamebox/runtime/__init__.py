"""
Runtime core of tamebox.

This package holds the host object model, the policy loader, the repair
engine, the taming walker and the confinement path that evaluates untrusted
source against a hardened primordial baseline. It deliberately imports
nothing at package level so submodules can be used on their own.
"""
