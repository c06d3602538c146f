"""
API views for the cancellation / deadline-extension workflow.
"""
import logging
import uuid
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from cancellations.serializers import (
    ApplicationListQuerySerializer,
    ApproveSerializer,
    CancellationApplicationSerializer,
    CancellationSubmissionSerializer,
    ExtensionApplicationSerializer,
    ExtensionSubmissionSerializer,
    RejectSerializer,
)
from cancellations.services.eligibility import EligibilityEvaluator, EligibilityPolicy
from cancellations.services.errors import (
    AlreadyDecided,
    CascadeIncomplete,
    ConflictingActiveMerchants,
    DuplicateApplication,
    InvalidStatus,
    MissingReason,
    NotEligible,
    NotFound,
    WorkflowError,
)
from cancellations.services.store import CANCELLATION, EXTENSION, list_applications
from cancellations.services.submission import submit_cancellation, submit_extension
from cancellations.services.workflow import (
    approve_cancellation,
    approve_extension,
    reject_cancellation,
    reject_extension,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    NotEligible: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DuplicateApplication: status.HTTP_409_CONFLICT,
    AlreadyDecided: status.HTTP_409_CONFLICT,
    MissingReason: status.HTTP_400_BAD_REQUEST,
    ConflictingActiveMerchants: status.HTTP_409_CONFLICT,
    InvalidStatus: status.HTTP_500_INTERNAL_SERVER_ERROR,
    CascadeIncomplete: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _status_for(error: WorkflowError) -> int:
    for error_class, http_status in ERROR_STATUS.items():
        if isinstance(error, error_class):
            return http_status
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def build_evaluator() -> EligibilityEvaluator:
    return EligibilityEvaluator(EligibilityPolicy.from_settings())


@method_decorator(csrf_exempt, name='dispatch')
class WorkflowAPIView(APIView):
    """
    Base view: runs one service operation and translates its errors.

    Every response carries a correlation_id for request tracing.
    """

    def run(self, operation, description: str):
        """
        Execute ``operation`` and wrap its result.

        Args:
            operation: Callable returning (data, http_status)
            description: Human readable action for log lines

        Returns:
            200/201 with the operation's data, or the error response
        """
        # Generate correlation ID for request tracing
        correlation_id = str(uuid.uuid4())

        try:
            data, http_status = operation()
            logger.info(f"{description} succeeded, correlation_id={correlation_id}")
            data['correlation_id'] = correlation_id
            return Response(data, status=http_status)

        except WorkflowError as e:
            http_status = _status_for(e)
            if http_status >= 500:
                logger.error(
                    f"{description} failed: {e.code} {e.message}, "
                    f"correlation_id={correlation_id}"
                )
            else:
                logger.warning(
                    f"{description} refused: {e.code} {e.message}, "
                    f"correlation_id={correlation_id}"
                )
            body = e.to_dict()
            body['correlation_id'] = correlation_id
            return Response(body, status=http_status)

        except Exception as e:
            logger.error(
                f"Error during {description}: {e}, "
                f"correlation_id={correlation_id}",
                exc_info=True
            )
            return Response(
                {
                    'error': 'Internal server error',
                    'correlation_id': correlation_id
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    def invalid(self, serializer):
        correlation_id = str(uuid.uuid4())
        logger.warning(
            f"Invalid request body: {serializer.errors}, "
            f"correlation_id={correlation_id}"
        )
        return Response(
            {
                'error': 'Invalid request',
                'detail': serializer.errors,
                'correlation_id': correlation_id
            },
            status=status.HTTP_400_BAD_REQUEST
        )


class CancelableCasesView(WorkflowAPIView):
    """
    GET /api/merchants/<merchant_id>/cancelable-cases/
    - Leads the merchant may currently submit a cancellation for
    """

    def get(self, request, merchant_id):
        def operation():
            cases = build_evaluator().list_cancelable_cases(merchant_id)
            return {'merchant_id': merchant_id, 'cases': [c.to_dict() for c in cases]}, status.HTTP_200_OK

        return self.run(operation, f"Listing cancelable cases for merchant {merchant_id}")


class ExtensionEligibleCasesView(WorkflowAPIView):
    """
    GET /api/merchants/<merchant_id>/extension-eligible-cases/
    """

    def get(self, request, merchant_id):
        def operation():
            cases = build_evaluator().list_extension_eligible_cases(merchant_id)
            return {'merchant_id': merchant_id, 'cases': [c.to_dict() for c in cases]}, status.HTTP_200_OK

        return self.run(operation, f"Listing extension-eligible cases for merchant {merchant_id}")


class CancellationSubmitView(WorkflowAPIView):
    """
    POST /api/merchants/<merchant_id>/cancellations/

    Returns:
        201 Created: Application stored as pending
        400 Bad Request: Invalid body
        404 / 409 / 422: Not delivered, duplicate, not eligible
    """

    def post(self, request, merchant_id):
        serializer = CancellationSubmissionSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid(serializer)
        data = dict(serializer.validated_data)
        lead_id = data.pop('lead_id')

        def operation():
            application = submit_cancellation(
                merchant_id,
                lead_id,
                data.pop('reason_category'),
                data.pop('reason_detail'),
                evaluator=build_evaluator(),
                **data
            )
            return CancellationApplicationSerializer(application).data, status.HTTP_201_CREATED

        return self.run(operation, f"Cancellation submission for lead {lead_id} by merchant {merchant_id}")


class ExtensionSubmitView(WorkflowAPIView):
    """
    POST /api/merchants/<merchant_id>/extensions/
    """

    def post(self, request, merchant_id):
        serializer = ExtensionSubmissionSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid(serializer)
        data = dict(serializer.validated_data)
        lead_id = data.pop('lead_id')

        def operation():
            application = submit_extension(
                merchant_id,
                lead_id,
                data.pop('contact_date'),
                data.pop('appointment_date'),
                data.pop('reason'),
                evaluator=build_evaluator(),
                **data
            )
            return ExtensionApplicationSerializer(application).data, status.HTTP_201_CREATED

        return self.run(operation, f"Extension submission for lead {lead_id} by merchant {merchant_id}")


class CancellationApproveView(WorkflowAPIView):
    """
    POST /api/cancellations/<application_id>/approve/
    - Body: {"approver": "...", "policy": "warn" | "block"}
    """

    def post(self, request, application_id):
        serializer = ApproveSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid(serializer)

        def operation():
            result = approve_cancellation(
                application_id,
                serializer.validated_data['approver'],
                policy=serializer.validated_data.get('policy'),
            )
            return result.to_dict(), status.HTTP_200_OK

        return self.run(operation, f"Approval of cancellation {application_id}")


class CancellationRejectView(WorkflowAPIView):
    """
    POST /api/cancellations/<application_id>/reject/
    - Body: {"approver": "...", "reason": "..."}
    """

    def post(self, request, application_id):
        serializer = RejectSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid(serializer)

        def operation():
            result = reject_cancellation(
                application_id,
                serializer.validated_data['approver'],
                serializer.validated_data['reason'],
            )
            return result.to_dict(), status.HTTP_200_OK

        return self.run(operation, f"Rejection of cancellation {application_id}")


class ExtensionApproveView(WorkflowAPIView):
    """
    POST /api/extensions/<application_id>/approve/
    """

    def post(self, request, application_id):
        serializer = ApproveSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid(serializer)

        def operation():
            result = approve_extension(application_id, serializer.validated_data['approver'])
            data = result.to_dict()
            data['extended_deadline'] = result.application.extended_deadline.isoformat()
            return data, status.HTTP_200_OK

        return self.run(operation, f"Approval of extension {application_id}")


class ExtensionRejectView(WorkflowAPIView):
    """
    POST /api/extensions/<application_id>/reject/
    """

    def post(self, request, application_id):
        serializer = RejectSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid(serializer)

        def operation():
            result = reject_extension(
                application_id,
                serializer.validated_data['approver'],
                serializer.validated_data['reason'],
            )
            return result.to_dict(), status.HTTP_200_OK

        return self.run(operation, f"Rejection of extension {application_id}")


class ApplicationListView(WorkflowAPIView):
    """
    GET /api/cancellations/?status=pending
    GET /api/extensions/?status=pending
    """

    kind = CANCELLATION
    serializer_class = CancellationApplicationSerializer

    def get(self, request):
        query = ApplicationListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return self.invalid(query)
        application_status = query.validated_data.get('status')

        def operation():
            applications = list_applications(self.kind, status=application_status)
            return {
                'count': len(applications),
                'results': self.serializer_class(applications, many=True).data,
            }, status.HTTP_200_OK

        return self.run(operation, f"Listing {self.kind} applications")


class CancellationListView(ApplicationListView):
    kind = CANCELLATION
    serializer_class = CancellationApplicationSerializer


class ExtensionListView(ApplicationListView):
    kind = EXTENSION
    serializer_class = ExtensionApplicationSerializer
