from flow_control import break_if

break_if(True)
