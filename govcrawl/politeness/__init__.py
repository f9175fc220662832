"""Rate limiting and robots.txt compliance."""

from govcrawl.politeness.governor import GovernorStats, PolitenessGovernor, TimingStore
from govcrawl.politeness.robots import (
    RobotsCache,
    RobotsDirective,
    RobotsRules,
    is_path_allowed,
    parse_robots_txt,
    robots_pattern_matches,
)

__all__ = [
    "GovernorStats",
    "PolitenessGovernor",
    "RobotsCache",
    "RobotsDirective",
    "RobotsRules",
    "TimingStore",
    "is_path_allowed",
    "parse_robots_txt",
    "robots_pattern_matches",
]
