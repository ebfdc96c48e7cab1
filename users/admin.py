# users/admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils import timezone

from users.models import User, Member


class MemberInline(admin.StackedInline):
    model = Member
    can_delete = False
    extra = 0
    readonly_fields = ['member_number', 'kyc_verified_at', 'created_at']


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'full_name', 'role', 'is_active', 'created_at']
    list_filter = ['role', 'is_active']
    search_fields = ['email', 'username', 'first_name', 'last_name', 'member__member_number']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'updated_at', 'last_login']
    inlines = [MemberInline]

    fieldsets = (
        (None, {'fields': ('email', 'username', 'password')}),
        ('Profile', {'fields': ('first_name', 'last_name', 'phone_number', 'role')}),
        ('Access', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups')}),
        ('Activity', {'fields': ('last_login', 'created_at', 'updated_at')}),
    )
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'username', 'first_name', 'role', 'password1', 'password2'),
        }),
    )


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ['member_number', 'user', 'kyc_status', 'status', 'estimated_monthly_income']
    list_filter = ['kyc_status', 'status']
    search_fields = ['member_number', 'user__email']
    readonly_fields = ['member_number', 'kyc_verified_at', 'created_at', 'updated_at']
    actions = ['verify_kyc', 'suspend']

    @admin.action(description='Verify KYC for selected members')
    def verify_kyc(self, request, queryset):
        updated = queryset.exclude(kyc_status='verified').update(
            kyc_status='verified', kyc_verified_at=timezone.now()
        )
        self.message_user(request, f'{updated} member(s) verified')

    @admin.action(description='Suspend selected members')
    def suspend(self, request, queryset):
        self.message_user(request, f"{queryset.update(status='suspended')} member(s) suspended")
