# views.py
import logging
from datetime import datetime, timezone

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from .engine import schedule
from .errors import InvalidInputShape
from .serializers import ScheduleRequestSerializer

logger = logging.getLogger(__name__)


class ScheduleTasks(APIView):
    """
    POST /api/v1/projects/<project_id>/schedule
    Accepts {"tasks": [...]}, returns {"recommendedOrder": [...]} with one
    deterministic order honoring every dependency, or 400 with the first
    problem found in the task set.
    """

    def post(self, request, project_id):
        serializer = ScheduleRequestSerializer(data=request.data)
        if not serializer.is_valid():
            payload = InvalidInputShape("request body must contain tasks array").to_dict()
            payload["details"] = serializer.errors
            return Response(payload, status=status.HTTP_400_BAD_REQUEST)

        tasks = serializer.validated_data["tasks"]
        logger.debug("scheduling %d task(s) for project %s", len(tasks), project_id)

        result = schedule(tasks)
        if not result.ok:
            return Response(result.to_dict(), status=status.HTTP_400_BAD_REQUEST)
        return Response(result.to_dict(), status=status.HTTP_200_OK)


class HealthCheck(APIView):
    """GET /healthz"""

    def get(self, request):
        now = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return Response({"status": "ok", "time": now}, status=status.HTTP_200_OK)
