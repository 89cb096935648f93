def matches(entry):
    return True


no_such_function(matches)
