"""
                DineAI Assistant Backbone

Transactional core behind a voice/text restaurant assistant: turns named
tool calls into consistent order and table mutations, with per-role
permissions and per-user daily usage quotas.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
