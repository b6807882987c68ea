v = []
label(outer)
for a in range(1, 3):
    for b in range(1, 5):
        brk_if(b == 3, outer)
        v.append((a, b))
print(v)
