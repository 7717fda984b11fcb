"""
Service objects shared by the views.

They are constructed once per process by ``ClinicConfig.ready`` and
reach each request as ``request.services``.
"""
