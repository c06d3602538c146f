"""
URL configuration for cancellations app.
"""
from django.urls import path
from cancellations import views

urlpatterns = [
    path('merchants/<str:merchant_id>/cancelable-cases/', views.CancelableCasesView.as_view(),
         name='cancelable-cases'),
    path('merchants/<str:merchant_id>/cancellations/', views.CancellationSubmitView.as_view(),
         name='cancellation-submit'),
    path('merchants/<str:merchant_id>/extension-eligible-cases/', views.ExtensionEligibleCasesView.as_view(),
         name='extension-eligible-cases'),
    path('merchants/<str:merchant_id>/extensions/', views.ExtensionSubmitView.as_view(),
         name='extension-submit'),
    path('cancellations/', views.CancellationListView.as_view(), name='cancellation-list'),
    path('cancellations/<str:application_id>/approve/', views.CancellationApproveView.as_view(),
         name='cancellation-approve'),
    path('cancellations/<str:application_id>/reject/', views.CancellationRejectView.as_view(),
         name='cancellation-reject'),
    path('extensions/', views.ExtensionListView.as_view(), name='extension-list'),
    path('extensions/<str:application_id>/approve/', views.ExtensionApproveView.as_view(),
         name='extension-approve'),
    path('extensions/<str:application_id>/reject/', views.ExtensionRejectView.as_view(),
         name='extension-reject'),
]
