from django.conf import settings

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand, CommandError

from authentication.models import User


class Command(BaseCommand):
    help = "Create the initial administrator account if it does not exist yet."

    def add_arguments(self, parser):
        parser.add_argument("--username", default=settings.ADMIN_USERNAME)
        parser.add_argument("--email", default=settings.ADMIN_EMAIL)
        parser.add_argument("--password", default=settings.ADMIN_PASSWORD)

    def handle(self, *args, **options):
        email = options["email"].lower().strip()
        if User.objects.filter(email=email).exists():
            self.stdout.write(f"Admin {email} already exists, nothing to do.")
            return

        password = options["password"]
        if not password or len(password) < 8:
            raise CommandError("An admin password of at least 8 characters is required (--password or ADMIN_PASSWORD).")

        admin = User.create_admin(options["username"], make_password(password), email)
        self.stdout.write(self.style.SUCCESS(f"Initial admin created: {admin.username} <{admin.email}>"))
