"""Collections Follow-up Service

Back end for the debt follow-up workflow:
- Records manager follow-ups against one or more debts
- Evaluates transition rules per management type and debt state
- Routes sensitive state changes through supervisor authorization
- Exposes the rule store to administrators
"""

__version__ = "1.0.0"
