"""
Chart maker application package.

  app/services/  — business logic: the chart grid, the cover search overlay,
                   and PNG export.

Route handlers in ``chartmaker_gui.py`` build one set of services per browser
session (a *workspace*) and call them directly, keeping the HTTP layer free
of domain rules.
"""
