import flow_control as fc

v = []
fc.label(outer)
for outer_n in range(1, 3):
    for inner_n in range(1, 5):
        fc.continue_if(inner_n == 3, outer)
        v.append((outer_n, inner_n))

print(v)
