import random
import sys

n = int(sys.argv[1])
random.seed(int(sys.argv[2]))
print(n)
print(' '.join(str(random.randint(-1000, 1000)) for _ in range(n)))
