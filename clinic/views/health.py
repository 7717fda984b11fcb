from django.db import DatabaseError, connections
from django.http import JsonResponse


def healthz(request):
    status = {'db': False, 'cache': False}
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            row = c.fetchone()
        status['db'] = bool(row and row[0] == 1)
    except DatabaseError:
        request.services.monitor.error('health check: database unavailable', request=request)
    status['cache'] = request.services.cache.ping()
    ok = all(status.values())
    return JsonResponse({'ok': ok, **status}, status=200 if ok else 503)
