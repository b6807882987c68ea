from flow_control import break_if, label

v = []
label(outer)
for outer_n in range(1, 3):
    for inner_n in range(1, 5):
        break_if(inner_n == 3, outer)
        v.append((outer_n, inner_n))

print(v)
