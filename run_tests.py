#!/usr/bin/env python3
# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Test runner for the closeout suite.

Suites can be named instead of spelled out as paths:

    python run_tests.py                     # Whole suite
    python run_tests.py triage              # tests/triage
    python run_tests.py cli utils -x        # tests/cli and tests/utils, stop on first failure
    python run_tests.py core                # tests/test_classes.py
    python run_tests.py tests/triage/test_gate.py::TestForgeWriter  # Paths pass through unchanged
    python run_tests.py -k "reopen"         # Options pass through unchanged
    python run_tests.py --lf                # Re-run last failures
"""

import subprocess
import sys

SUITES = {
    'core': 'tests/test_classes.py',
    'triage': 'tests/triage',
    'utils': 'tests/utils',
    'cli': 'tests/cli',
}

# pytest options whose value is the next argument, e.g. `-k reopen`
OPTIONS_WITH_VALUE = {'-k', '-m', '-p', '-o', '-c', '--rootdir', '--deselect', '--ignore'}


def build_command(args):
    cmd = [sys.executable, '-m', 'pytest']
    targets = []
    options = []

    expects_value = False
    for arg in args:
        if expects_value:
            options.append(arg)
            expects_value = False
        elif arg.startswith('-'):
            options.append(arg)
            expects_value = arg in OPTIONS_WITH_VALUE
        else:
            targets.append(SUITES.get(arg, arg))

    return cmd + (targets or ['tests/']) + options


def main():
    result = subprocess.run(build_command(sys.argv[1:]))
    sys.exit(result.returncode)


if __name__ == '__main__':
    main()
