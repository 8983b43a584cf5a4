"""
Geographic authorization rules package.

Defines the rule model and the precedence engine. DENY anywhere on the
root-to-area path always wins; ALLOW grants FULL to the area and its
subtree; ancestors of a reachable ALLOW get READ_ONLY for navigation.

Modules of interest:
- models: RuleType, AccessLevel, AuthorizationRule, RuleSet, AuthorizationInfo.
- rule_store: Rule CRUD with the per-(user, area) uniqueness invariant.
- evaluator: Single-area access evaluation.
- info_builder: Flat authorized-area set for bulk filtering.
- guard: Access assertions and denial auditing.
"""
