"""
GraphQL documents sent to the marketplace indexer.
"""

TOKEN_FIELDS = """
    id
    createdAt
    contract
    tokenId
    owner
    uri
"""

GET_ORDERS = """
query GetOrders($lastBlock_gt: BigInt = -1, $skip: Int!, $first: Int!) {
  orders(
    orderBy: lastBlock
    orderDirection: asc
    where: {lastBlock_gt: $lastBlock_gt}
    skip: $skip
    first: $first
  ) {
    id
    lastBlock
    createdAt
    kind
    open
    openFrom
    openTo
    maker
    taker
    currency
    price
    priceIsMinimum
    paidAmount
    token {%s}
  }
}
""" % TOKEN_FIELDS

GET_TOKENS = """
query GetTokens($where: Token_filter, $skip: Int = 0, $first: Int = 100) {
  tokens(where: $where, skip: $skip, first: $first, orderBy: createdAt, orderDirection: desc) {%s}
}
""" % TOKEN_FIELDS
