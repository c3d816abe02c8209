from leakguard.checkers.base import BreachChecker
from leakguard.checkers.leakcheck import LeakCheckChecker
from leakguard.checkers.xposedornot import XposedOrNotChecker

__all__ = ["BreachChecker", "LeakCheckChecker", "XposedOrNotChecker"]
