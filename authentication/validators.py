from django import forms
import re

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def validate_username(username: str):
    if not username or not username.strip():
        raise forms.ValidationError("사용자명은 필수입니다.")

    username = username.strip()
    if len(username) < 3 or len(username) > 50:
        raise forms.ValidationError("사용자명은 3~50자 사이여야 합니다.")
    if not re.match(r'^[a-zA-Z0-9_.-]+$', username):
        raise forms.ValidationError("사용자명에는 영문, 숫자, 점, 하이픈, 밑줄만 사용할 수 있습니다.")

    return username


def validate_password(password: str):
    if not password or not password.strip():
        raise forms.ValidationError("패스워드는 필수입니다.")
    if len(password) < 8 or len(password) > 100:
        raise forms.ValidationError("패스워드는 8~100자 사이여야 합니다.")

    return password


def validate_email(email: str):
    if not email or not email.strip():
        raise forms.ValidationError("이메일은 필수입니다.")

    email = email.lower().strip()
    if not EMAIL_PATTERN.match(email):
        raise forms.ValidationError("유효한 이메일 형식이어야 합니다.")

    return email
