class ConfirmationGate:
    """Two-step confirmation in front of a destructive or lossy action.

    ``arm(target)`` records what the action would apply to, ``confirm(action)``
    runs ``action(target)`` and ``cancel()`` forgets the target without calling
    anything. While the action runs the gate is in flight and refuses both
    confirm and cancel, so a double submit cannot reach the action twice.

    Once the action has run the gate is disarmed whatever it returned; the
    return value of ``confirm`` is the action's result as a bool.
    """

    def __init__(self, target=None):
        self.target = target
        self.in_flight = False

    @property
    def is_armed(self):
        return self.target is not None

    def arm(self, target):
        if self.in_flight or target is None:
            return False
        self.target = target
        return True

    def cancel(self):
        if self.in_flight:
            return False
        self.target = None
        return True

    def confirm(self, action):
        if self.in_flight or not self.is_armed:
            return False
        self.in_flight = True
        try:
            ok = bool(action(self.target))
        finally:
            self.in_flight = False
        self.target = None
        return ok
