from rest_framework import serializers


class ScheduleRequestSerializer(serializers.Serializer):
    # Records stay loosely typed here; the engine owns per-task validation so
    # its error messages reach the client unchanged.
    tasks = serializers.ListField(child=serializers.JSONField(), allow_empty=True)
