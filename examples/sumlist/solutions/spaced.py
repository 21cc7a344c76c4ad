n = int(input())
values = list(map(int, input().split()))
print(' '.join(str(sum(values))))
