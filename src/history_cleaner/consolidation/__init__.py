"""Entity consolidation: alias rules, grouping keys and the merge fold."""

from history_cleaner.consolidation.consolidator import Consolidator, merge_top_songs, merge_yearly_play_time
from history_cleaner.consolidation.rules import ConsolidationRule, RuleFileError, RuleTable

__all__ = [
    "ConsolidationRule",
    "Consolidator",
    "RuleFileError",
    "RuleTable",
    "merge_top_songs",
    "merge_yearly_play_time",
]
