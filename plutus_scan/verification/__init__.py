"""
Verification pipeline: intake, scheduling, artifact cache, hash derivation,
persistence and the read-only query API.

Submodules are imported directly (plutus_scan.verification.service, ...);
this package does not re-export them so that the blueprint parsers can depend
on the schemas without an import cycle.
"""
