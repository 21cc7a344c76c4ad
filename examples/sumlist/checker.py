"""Compares a single integer, following the testlib exit codes:
0 accepted, 1 wrong answer, 2 presentation error."""
import sys

_, infile, outfile, ansfile = sys.argv

with open(ansfile) as f:
    expected = int(f.read().split()[0])
with open(outfile) as f:
    tokens = f.read().split()

if len(tokens) != 1:
    print(f'expected a single integer, got {len(tokens)} tokens', file=sys.stderr)
    sys.exit(2)
try:
    got = int(tokens[0])
except ValueError:
    print(f'expected an integer, got {tokens[0]!r}', file=sys.stderr)
    sys.exit(2)
if got != expected:
    print(f'expected {expected}, got {got}', file=sys.stderr)
    sys.exit(1)
