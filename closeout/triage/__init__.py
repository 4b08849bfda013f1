# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Resolved-issue triage pipeline.

    exclusion  -> issues reopened after a merged fix, never proposed
    collector  -> closed PRs cross-referenced on each open issue
    validator  -> merge, ordering, reopen, content match, codebase presence
    gate       -> operator approval before any forge write
"""
