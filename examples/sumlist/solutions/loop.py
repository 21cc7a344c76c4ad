import sys

tokens = sys.stdin.read().split()
total = 0
for token in tokens[1:]:
    total += int(token)
print(total)
