from rest_framework.permissions import AllowAny
from rest_framework.views import APIView
from rest_framework.response import Response


class PingView(APIView):
    """Health check endpoint"""
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"message": "Bang"})
