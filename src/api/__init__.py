"""HTTP surface for Latchkey.

Import the application factory from :mod:`src.api.main`; this package
does not import it eagerly so that :mod:`src.api.auth` stays usable from
the identity layer without pulling in the routes.
"""
