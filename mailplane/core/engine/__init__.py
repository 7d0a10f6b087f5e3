"""Engine — lock manager, phase executor and session driver."""
