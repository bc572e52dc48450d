"""
basestack - credential generation and dependency-ordered provisioning of a
self-hosted Supabase stack on a single docker host.

Packages:
    basestack.auth    Token minting and the per-run credential set
    basestack.deploy  Config, service catalog, planner, runtime, orchestrator
    basestack.core    Error hierarchy and structured logging
    basestack.cli     Typer command-line interface
"""

__version__ = "0.1.0"
