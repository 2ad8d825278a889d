#!/usr/bin/env python3
"""
Master test runner for Parley
Runs all test suites and optionally a coverage report
"""

import unittest
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def run_all_tests():
    """Discover and run all tests"""
    loader = unittest.TestLoader()
    start_dir = os.path.dirname(os.path.abspath(__file__))
    suite = loader.discover(start_dir, pattern='test_*.py')

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    # Print summary
    print("\n" + "="*70)
    print("TEST SUMMARY")
    print("="*70)
    print(f"Tests run: {result.testsRun}")
    print(f"Failures: {len(result.failures)}")
    print(f"Errors: {len(result.errors)}")
    print(f"Skipped: {len(result.skipped)}")

    if result.wasSuccessful():
        print("\nALL TESTS PASSED")
        return 0
    else:
        print("\nSOME TESTS FAILED")
        return 1


def run_with_coverage():
    """Run tests with coverage report (pip install -e .[test])"""
    import coverage

    root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    cov = coverage.Coverage(source=[root], omit=['*/tests/*', '*/setup.py'])
    cov.start()

    exit_code = run_all_tests()

    cov.stop()
    cov.save()

    print("\n" + "="*70)
    print("COVERAGE REPORT")
    print("="*70)
    cov.report()

    cov.html_report(directory='htmlcov')
    print("\nHTML coverage report generated in: htmlcov/index.html")

    return exit_code


if __name__ == '__main__':
    if '--coverage' in sys.argv:
        sys.exit(run_with_coverage())
    else:
        sys.exit(run_all_tests())
