# payments/views/admin.py

"""
Operator endpoints for the abandonment sweeper (platform admins only).
"""

from drf_spectacular.utils import extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.serializers import AbandonmentStatsSerializer, SweepResultSerializer
from payments.services import abandonment_sweeper
from users.permissions import IsAdmin


class CleanupAbandonedView(APIView):
    permission_classes = [IsAuthenticated, IsAdmin]

    @extend_schema(request=None, responses={200: SweepResultSerializer}, tags=["Payments admin"])
    def post(self, request):
        result = abandonment_sweeper.run_manual_sweep(actor=request.user)
        return Response(SweepResultSerializer(result.as_dict()).data)


class AbandonedStatsView(APIView):
    permission_classes = [IsAuthenticated, IsAdmin]

    @extend_schema(responses={200: AbandonmentStatsSerializer}, tags=["Payments admin"])
    def get(self, request):
        stats = abandonment_sweeper.get_abandonment_stats()
        return Response(AbandonmentStatsSerializer(stats).data)
