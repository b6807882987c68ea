import sys

from flow_control import return_if


def get_value():
    for n in range(1, 10):
        return_if(n == 5, "early return")
    return "return after loop"


def first_over(limit, xs):
    for x in xs:
        return_if(x > limit, x)
    return None


print(get_value())
if len(sys.argv) > 1:
    print(first_over(int(sys.argv[1]), [1, 5, 10, 50]))
