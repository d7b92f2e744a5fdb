"""
Authentication views.

Sign-up, sign-in, token refresh, sign-out and the current profile.  By
keeping these views apart from the authentication class (see
``core.authentication``) we prevent circular imports when Django REST
framework initialises authentication classes.
"""
from __future__ import annotations

from django.contrib.auth import authenticate
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from core.serializers.auth import RefreshSerializer, SignInSerializer, SignOutSerializer, SignUpSerializer
from core.serializers.rows import serialize_row
from core.services.accounts import issue_tokens, sign_up
from core.services.audit import log_action

from .models import User


def _auth_payload(user: User) -> dict:
    return {'ok': True, **issue_tokens(user), 'user': serialize_row(user)}


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([ScopedRateThrottle])
def signup_view(request):
    s = SignUpSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = sign_up(**s.validated_data)
    return Response(_auth_payload(user), status=201)

signup_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([ScopedRateThrottle])
def signin_view(request):
    """Email/password sign-in returning a JWT pair and the profile row."""
    s = SignInSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    email = s.validated_data['email']

    user = authenticate(request, username=email, password=s.validated_data['password'])
    if not user:
        log_action(user=None, action='signin', detail={'result': 'fail', 'email': email,
                                                       'ip': request.META.get('REMOTE_ADDR')})
        return Response({'ok': False, 'error': {'code': 'invalid_credentials',
                                                'message': 'Invalid email or password'}}, status=400)

    log_action(user=user, action='signin', table_name=User.TABLE_NAME, record_id=user.id,
               detail={'result': 'ok', 'ip': request.META.get('REMOTE_ADDR')})
    return Response(_auth_payload(user), status=200)

signin_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_view(request):
    """Return a new access token for a refresh token."""
    s = RefreshSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = TokenRefreshSerializer(data={'refresh': s.validated_data['refresh']})
    try:
        refresh.is_valid(raise_exception=True)
    except TokenError as e:
        return Response({'ok': False, 'error': {'code': 'token_not_valid', 'message': str(e)}}, status=401)
    return Response({'ok': True, **refresh.validated_data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def signout_view(request):
    """Blacklist the given refresh token, or every outstanding one of the caller."""
    s = SignOutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
            count = 1
        except TokenError as e:
            return Response({'ok': False, 'error': {'code': 'token_not_valid', 'message': str(e)}}, status=400)
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    log_action(user=request.user, action='signout', table_name=User.TABLE_NAME, record_id=request.user.id)
    return Response({'ok': True, 'blacklisted': count})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    return Response({'ok': True, 'user': serialize_row(request.user)})
