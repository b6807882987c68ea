from flow_control import break_if, return_if


def f(xs):
    for x in xs:
        break_if()
        break_if(x == 1, outer, extra)
    return_if(True, 1)
