"""
WhatToEat client package.

Layered the same way throughout:

  whattoeat/repositories/  local state: the JSON settings file holding the
                           server address and the signed-in identity.
  whattoeat/services/      the HTTP transport, the typed remote gateway and
                           the three controllers (session, decision,
                           settings) whose state a front-end renders.

``whattoeat_cli.py`` is the integration point: ``WhatToEatClient`` creates
the store, transport, gateway and controllers once and hands them to the
terminal front-end.
"""

__version__ = '1.0.0'
