"""
Bundled quality rules.

Every module in this directory not starting with an underscore is a rule
plugin discovered by the RuleEngine. A plugin exposes exactly one public
function taking the project and returning a RuleResult; helpers are kept
private. When a rule runs is decided by the ``rules`` section of the
configuration, not by the plugin.
"""
