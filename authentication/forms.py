# authentication/forms.py
from django import forms
from django.contrib.auth.hashers import check_password
from authentication.models import User
from authentication.validators import validate_username, validate_password, validate_email


class LoginForm(forms.Form):
    email = forms.CharField(
        max_length=100,
        strip=True,
        required=True,
        error_messages={
            'required': '이메일은 필수입니다.',
            'max_length': '이메일은 100자를 초과할 수 없습니다.'
        }
    )
    password = forms.CharField(
        max_length=255,
        strip=False,
        required=True,
        error_messages={
            'required': '패스워드는 필수입니다.',
            'max_length': '패스워드는 255자를 초과할 수 없습니다.'
        }
    )

    def clean_email(self):
        return (self.cleaned_data.get('email') or '').lower().strip()

    def find_user(self):
        try:
            return User.objects.get(email=self.cleaned_data['email'])
        except User.DoesNotExist:
            return None

    def password_matches(self, user):
        return check_password(self.cleaned_data['password'], user.password)


class RegistrationForm(forms.Form):
    username = forms.CharField(
        max_length=50,
        strip=True,
        required=True,
        error_messages={
            'required': '사용자명은 필수입니다.',
            'max_length': '사용자명은 3~50자 사이여야 합니다.'
        }
    )
    password = forms.CharField(
        max_length=100,
        strip=False,
        required=True,
        error_messages={
            'required': '패스워드는 필수입니다.',
            'max_length': '패스워드는 8~100자 사이여야 합니다.'
        }
    )
    email = forms.CharField(
        max_length=100,
        strip=True,
        required=True,
        error_messages={
            'required': '이메일은 필수입니다.',
            'max_length': '이메일은 100자를 초과할 수 없습니다.'
        }
    )

    def clean_username(self):
        return validate_username(self.cleaned_data.get('username'))

    def clean_password(self):
        return validate_password(self.cleaned_data.get('password'))

    def clean_email(self):
        return validate_email(self.cleaned_data.get('email'))
