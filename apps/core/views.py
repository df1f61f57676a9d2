from django.http import Http404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet


class BaseResponseMixin:
    """
    Envelope shared by every endpoint:

        {"status": "success" | "error", "status_code": int, "message": str, "data": ...}

    Error envelopes also carry a machine readable ``code`` and ``retryable``,
    the same keys domain errors get from ``custom_exception_handler``.
    """

    def success_response(self, data=None, message="Success", status_code=status.HTTP_200_OK):
        return Response(
            {
                "status": "success",
                "status_code": status_code,
                "message": message,
                "data": data,
            },
            status=status_code,
        )

    def error_response(
        self,
        message="An error occurred",
        status_code=status.HTTP_400_BAD_REQUEST,
        data=None,
        code="invalid_request",
    ):
        return Response(
            {
                "status": "error",
                "status_code": status_code,
                "code": code,
                "message": message,
                "retryable": False,
                "data": data,
            },
            status=status_code,
        )


class BaseViewSet(GenericViewSet, BaseResponseMixin):
    """
    Read side shared by the marketplace viewsets: `list` and `retrieve`
    wrapped in the standard response format. Writes go through explicit
    actions that call the service layer.
    """

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)

        serializer = self.get_serializer(queryset, many=True)
        return self.success_response(
            data=serializer.data,
            message=f"{self.get_model_name()} list retrieved successfully",
        )

    def retrieve(self, request, *args, **kwargs):
        try:
            instance = self.get_object()
        except Http404:
            return self.error_response(
                message=f"{self.get_model_name()} not found",
                status_code=status.HTTP_404_NOT_FOUND,
                code="not_found",
            )
        serializer = self.get_serializer(instance)
        return self.success_response(
            data=serializer.data,
            message=f"{self.get_model_name()} retrieved successfully",
        )

    def get_model_name(self) -> str:
        return self.__class__.__name__.replace("ViewSet", "")
