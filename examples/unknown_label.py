from flow_control import break_if

for a in range(3):
    for b in range(3):
        break_if(b == 1, nowhere)
