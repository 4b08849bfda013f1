# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Closeout CLI

Usage:
    closeout scan --repo owner/repo        # Triage open issues, approve closures
    closeout check --issue 12 --pr 34      # Explain one candidate
    closeout config set repository o/r     # Set defaults
"""
