# routing_rules/services/operator_catalog.py
"""
Lookup table of match operators and the value shape each one needs.

Both criterion models and anything that gates operator choices per field
read from OPERATOR_CATALOG; nothing else should hard-code these sets.
"""
import enum
from typing import Dict, List, NamedTuple, Optional, Union

from routing_rules.schemas.enums import AssociationParameter, MatchOperation


class ValueArity(str, enum.Enum):
    NONE = "none"      # exists / not_exists
    SCALAR = "scalar"
    LIST = "list"      # comma-separated string on the wire


class OperatorSpec(NamedTuple):
    arity: ValueArity
    ip_only: bool = False


OPERATOR_CATALOG: Dict[MatchOperation, OperatorSpec] = {
    MatchOperation.EQUALS: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.NOT_EQUALS: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.GREATER_THAN: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.LESS_THAN: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.GREATER_EQUAL: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.LESS_EQUAL: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.CONTAINS: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.STARTS_WITH: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.ENDS_WITH: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.EXISTS: OperatorSpec(ValueArity.NONE),
    MatchOperation.NOT_EXISTS: OperatorSpec(ValueArity.NONE),
    MatchOperation.REGEX: OperatorSpec(ValueArity.SCALAR),
    MatchOperation.IN: OperatorSpec(ValueArity.LIST),
    MatchOperation.NOT_IN: OperatorSpec(ValueArity.LIST),
    MatchOperation.IP_ADDRESS_EQUALS: OperatorSpec(ValueArity.SCALAR, ip_only=True),
    MatchOperation.IP_ADDRESS_STARTS_WITH: OperatorSpec(ValueArity.SCALAR, ip_only=True),
    MatchOperation.IP_ADDRESS_IN_SUBNET: OperatorSpec(ValueArity.SCALAR, ip_only=True),
}


def _spec(op: Union[MatchOperation, str]) -> OperatorSpec:
    return OPERATOR_CATALOG[MatchOperation(op)]


def required_arity(op: Union[MatchOperation, str]) -> ValueArity:
    return _spec(op).arity


def is_ip_operator(op: Union[MatchOperation, str]) -> bool:
    return _spec(op).ip_only


def is_value_required(op: Union[MatchOperation, str]) -> bool:
    return required_arity(op) is not ValueArity.NONE


def is_value_list(op: Union[MatchOperation, str]) -> bool:
    return required_arity(op) is ValueArity.LIST


def operators_for_parameter(
    parameter: Optional[Union[AssociationParameter, str]] = None
) -> List[MatchOperation]:
    """
    Operators offered for a criterion. ``None`` means a dataset attribute;
    otherwise an association parameter, where only SOURCE_IP gets the IP operators.
    """
    allow_ip = parameter is not None and AssociationParameter(parameter) is AssociationParameter.SOURCE_IP
    return [op for op, spec in OPERATOR_CATALOG.items() if allow_ip or not spec.ip_only]
