"""
Permission classes for house-scoped endpoints.
"""

from rest_framework.permissions import BasePermission

from houses.models import HouseMember


class IsHouseMember(BasePermission):
    """
    Allow staff, or active members of the house named by the ``house_id``
    URL kwarg (or resolved by the view's ``get_house_id``).
    """

    message = "You are not a member of this house."

    def has_permission(self, request, view):
        user = request.user
        if user.is_staff:
            return True
        house_id = view.get_house_id() if hasattr(view, "get_house_id") else view.kwargs.get("house_id")
        if house_id is None:
            return False
        return HouseMember.objects.active().filter(house_id=house_id, user=user).exists()
