import re
import sys

data = sys.stdin.read()
if not re.fullmatch(r'[0-9]+\n-?[0-9]+( -?[0-9]+)*\n', data):
    sys.exit('bad format')
lines = data.split('\n')
n = int(lines[0])
values = [int(x) for x in lines[1].split()]
if not 1 <= n <= 1000:
    sys.exit(f'n = {n} out of range')
if len(values) != n:
    sys.exit(f'expected {n} values, got {len(values)}')
if any(abs(v) > 1000 for v in values):
    sys.exit('value out of range')
